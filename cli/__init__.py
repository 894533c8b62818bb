"""Command line tools for the sensor ingest service and its device simulator."""
