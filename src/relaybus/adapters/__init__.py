"""Adapters – concrete stores and transports.

Each subpackage needs its extra installed (``relaybus[sqlalchemy]``,
``relaybus[mongodb]``, ``relaybus[redis]``, ``relaybus[kafka]``,
``relaybus[rabbitmq]``); nothing is imported from here eagerly.
"""
