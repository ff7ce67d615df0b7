"""Typed failures raised by the dispatch engine and state machine."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for dispatch failures surfaced to callers."""


class MachineNotFound(DispatchError, LookupError):
    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"Machine '{machine_id}' not found")


class InvalidCoordinates(DispatchError, ValueError):
    def __init__(self, entity_id: str, latitude: object, longitude: object):
        self.entity_id = entity_id
        super().__init__(f"Invalid coordinates for '{entity_id}': ({latitude!r}, {longitude!r})")


class NoKitchenAvailable(DispatchError):
    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"No online kitchen found for machine '{machine_id}'")


class RequestNotFound(DispatchError, LookupError):
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request '{request_id}' not found")


class MissingReason(DispatchError, ValueError):
    def __init__(self, operation: str):
        super().__init__(f"Reason is required when {operation}")
