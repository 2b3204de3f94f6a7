"""HTTP server for Boleto Flow."""
