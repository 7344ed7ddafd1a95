"""Dependency injection — a named-service container used as a service locator.

Usage::

    from perch.di import Di, FactoryDefault

    di = FactoryDefault()
    di.set_shared("mailer", "app.mail:Mailer")
    mailer = di.get_shared("mailer")
"""

from perch.di.container import Di, ServiceProvider
from perch.di.factory import FactoryDefault
from perch.di.injectable import Injectable, InjectionAware
from perch.di.service import Service

__all__ = [
    "Di",
    "FactoryDefault",
    "Injectable",
    "InjectionAware",
    "Service",
    "ServiceProvider",
]
