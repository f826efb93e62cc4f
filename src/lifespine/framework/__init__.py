"""
Lifespine Framework - process/controller lifecycle engine.

This module provides:
- Registry of object types (handlers, inputs, attribute and value mappings)
- Data wrappers and the parameter bag cache
- Dispatcher running create/delete/query/get/update
- Base classes for processes (business logic) and controllers (backends)
- Core facade for applications

All components are backend-agnostic; backends plug in as controllers.
"""

from lifespine.framework.controller import BaseController
from lifespine.framework.core import Core
from lifespine.framework.data import REMOVE, Data, DataKind
from lifespine.framework.dispatcher import Dispatcher
from lifespine.framework.model import Event, InputKind, ObjectTypeDescriptor, Registry, RequiredInput
from lifespine.framework.params import ParameterBag
from lifespine.framework.process import BaseProcess
from lifespine.framework.protocols import Prompter

__all__ = [
    # Model
    "Registry",
    "ObjectTypeDescriptor",
    "RequiredInput",
    "Event",
    "InputKind",
    # Data
    "Data",
    "DataKind",
    "REMOVE",
    "ParameterBag",
    # Engine
    "Dispatcher",
    "Core",
    # Plugins
    "BaseProcess",
    "BaseController",
    "Prompter",
]
