"""Shared plumbing for the service layer."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now


class BaseService:
    """
    Base class for services that own transactions.

    Operations accept an optional ``uow``. When given, the operation joins
    the caller's transaction and the caller commits; otherwise the
    operation opens and commits its own.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Clock = utc_now):
        self._uow_factory = uow_factory
        self._clock = clock

    @asynccontextmanager
    async def _transaction(self, uow: UnitOfWorkPort | None = None) -> AsyncIterator[UnitOfWorkPort]:
        if uow is not None:
            yield uow
            return
        async with self._uow_factory() as own_uow:
            yield own_uow
