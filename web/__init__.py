"""Flask web application exposing the billing engine over HTTP."""
