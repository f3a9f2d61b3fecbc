"""

Notes
-----
The `cartesian` and `barycentric` decorators attach a `coordtype` attribute
to a function. Evaluators that accept user callables (interpolation,
projection, exact-error computation) read it to decide whether to pass
physical points or reference-element points.
"""
from functools import wraps

def cartesian(func):
    @wraps(func)
    def add_attribute(*args, **kwargs):
        return func(*args, **kwargs)
    add_attribute.__dict__['coordtype'] = 'cartesian'
    return add_attribute

def barycentric(func):
    @wraps(func)
    def add_attribute(*args, **kwargs):
        return func(*args, **kwargs)
    add_attribute.__dict__['coordtype'] = 'barycentric'
    return add_attribute
