"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Provides the common constructor and session-handling contract for
    the stock ledger, the secret pool, the cart and SKU maintenance
    services.  They receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (FulfillmentService, an HTTP handler, or a test) owns the unit of
      work, so a failed step leaves no partial counter mutation behind.

Failure modes:
    - A subclass that calls ``session.commit()`` breaks the per-item
      atomicity of FulfillmentService.create_auto.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models; those belong in
          ``fulfillment_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
