from ._kernel import *
