"""MVC layer — controllers and the dispatcher."""

from perch.mvc.controller import Controller
from perch.mvc.dispatcher import MAX_DISPATCH_LOOPS, Dispatcher, camelize

__all__ = ["MAX_DISPATCH_LOOPS", "Controller", "Dispatcher", "camelize"]
