"""State models shared by the UI domain managers."""
