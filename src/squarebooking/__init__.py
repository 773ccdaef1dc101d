"""Payment confirmation reconciliation for paid square bookings."""
