# src/async_mongo_source/__init__.py

"""
Async MongoDB Source Initialization.

This package maps a store-agnostic condition/update algebra onto MongoDB
filters, update documents and aggregation pipelines, and executes them
through an asynchronous source with sessions, transactions, error
normalization and optional performance metrics.

It initializes a logger with a NullHandler and makes the core components
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "async_mongo_source".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Condition, Params and Update Exports
# --------------------------------------------------------------------------
from .base.conditions import (CompositeCondition, Condition,
                              ConditionOperator, JunctionOperator,
                              RawCondition, and_, field, or_)
from .base.params import (AggregationParams, CountParams, FindParams,
                          RemoveParams, UpdateMethod, UpdateParams)
from .base.results import RemoveStats, UpdateStats
from .base.update import Update

# --------------------------------------------------------------------------
# Exception Exports
# --------------------------------------------------------------------------
from .base.exceptions import (BulkUpdateOperationsError, CollectionError,
                              DuplicateError, InconsistentUpdateParamsError,
                              InvalidDataError, MigrationError,
                              PendingSessionError, SessionError,
                              SessionErrorType, UnknownUpdateMethodError,
                              UnsupportedOperatorError)

# --------------------------------------------------------------------------
# MongoDB Implementation Exports
# --------------------------------------------------------------------------
from .mongodb.config import ConnectionPoolConfig, MongoConfig
from .mongodb.connection import MongoConnection
from .mongodb.field_resolver import FieldMapping, MongoFieldResolver
from .mongodb.migration import (BaseMigration, Migration, MigrationConfig,
                                MigrationResult, MigrationStatus,
                                MongoMigrationManager)
from .mongodb.performance import (BlankPerformanceMonitor,
                                  MongoPerformanceMonitor, PerformanceConfig,
                                  PerformanceMetric, PerformanceSummary)
from .mongodb.query_factory import MongoQueryFactory
from .mongodb.session import MongoDatabaseSession, MongoSessionManager
from .mongodb.source import CollectionOptions, MongoSource
from .mongodb.where_parser import MongoWhereParser

__all__ = [
    # Conditions
    "Condition",
    "CompositeCondition",
    "RawCondition",
    "ConditionOperator",
    "JunctionOperator",
    "field",
    "and_",
    "or_",
    # Params / results
    "FindParams",
    "CountParams",
    "RemoveParams",
    "UpdateParams",
    "UpdateMethod",
    "AggregationParams",
    "UpdateStats",
    "RemoveStats",
    # Update
    "Update",
    # Exceptions
    "UnsupportedOperatorError",
    "InconsistentUpdateParamsError",
    "UnknownUpdateMethodError",
    "BulkUpdateOperationsError",
    "PendingSessionError",
    "SessionError",
    "SessionErrorType",
    "CollectionError",
    "DuplicateError",
    "InvalidDataError",
    "MigrationError",
    # MongoDB
    "MongoConfig",
    "ConnectionPoolConfig",
    "MongoConnection",
    "FieldMapping",
    "MongoFieldResolver",
    "MongoWhereParser",
    "MongoQueryFactory",
    "MongoSource",
    "CollectionOptions",
    "MongoDatabaseSession",
    "MongoSessionManager",
    "PerformanceConfig",
    "PerformanceMetric",
    "PerformanceSummary",
    "MongoPerformanceMonitor",
    "BlankPerformanceMonitor",
    "BaseMigration",
    "Migration",
    "MigrationConfig",
    "MigrationStatus",
    "MigrationResult",
    "MongoMigrationManager",
    # Logging
    "logger",
]

__version__ = "0.1.0"
