from ._spread import *
