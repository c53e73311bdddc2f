"""
Pizzeria POS — Table occupancy rules

A table is OCCUPIED exactly while it has a non-terminal order. When the
last active order finishes the table goes to CLEANING, and only staff can
put it back to AVAILABLE.
"""
from pizzeria.core.errors import InvalidTransition, TableUnavailable, ValidationError
from pizzeria.models.table import DiningTable, TableStatus

# Moves staff can make by hand. OCCUPIED is owned by the order lifecycle.
MANUAL_TRANSITIONS: frozenset[tuple[TableStatus, TableStatus]] = frozenset({
    (TableStatus.CLEANING, TableStatus.AVAILABLE),
    (TableStatus.AVAILABLE, TableStatus.RESERVED),
    (TableStatus.RESERVED, TableStatus.AVAILABLE),
    (TableStatus.AVAILABLE, TableStatus.CLEANING),
})


def derive_status(current: TableStatus, active_orders: int) -> TableStatus:
    """
    Status a table should hold given how many non-terminal orders reference it.

    OCCUPIED with no active orders means the last one just finished, so the
    table needs cleaning. RESERVED, CLEANING and AVAILABLE are left alone
    when nothing is active.
    """
    if active_orders > 0:
        return TableStatus.OCCUPIED
    if current == TableStatus.OCCUPIED:
        return TableStatus.CLEANING
    return current


def check_can_seat(table: DiningTable, reservation_ref: str | None = None) -> None:
    """Raise TableUnavailable unless a new dine-in order may be opened on `table`."""
    if not table.is_active:
        raise TableUnavailable(table.id, table.status, reason="Table is disabled.")
    if table.status == TableStatus.AVAILABLE:
        return
    if table.status == TableStatus.RESERVED:
        if reservation_ref and reservation_ref == table.reservation_ref:
            return
        raise TableUnavailable(
            table.id, table.status, reason="Table is reserved for another booking.",
        )
    raise TableUnavailable(table.id, table.status)


def check_manual_change(
    current: TableStatus,
    target: TableStatus,
    reservation_ref: str | None = None,
) -> None:
    if (current, target) not in MANUAL_TRANSITIONS:
        raise InvalidTransition(
            current, target,
            reason=f"Table status cannot be changed by hand from {current.value} to {target.value}.",
        )
    if target == TableStatus.RESERVED and not reservation_ref:
        raise ValidationError("reservation_ref is required to reserve a table.")
