"""Position tracking and marker lifecycle for the fire-response map."""
