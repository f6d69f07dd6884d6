"""HTTP API for the AI visibility tracker."""
