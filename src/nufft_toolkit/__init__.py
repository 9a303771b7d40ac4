import importlib.metadata

__version__ = importlib.metadata.version("nufft_toolkit")

from .error import *
from .fft import *
from .nufft import *
from .nufft1 import *
from .nufft2 import *
from .nufft3 import *
