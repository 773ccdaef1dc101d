"""HTTP surface for square booking payment confirmation."""
