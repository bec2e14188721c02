from . import payment, segments
