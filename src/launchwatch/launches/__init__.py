"""Launch schedule tracking: feed polling, snapshots and change detection."""
