"""Task services and the recurring task engine."""
