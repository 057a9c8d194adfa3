"""Local-first profile persistence and cloud reconciliation for the SalesPro mini-app."""
