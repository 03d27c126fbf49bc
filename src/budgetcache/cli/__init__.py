"""Admin CLI for inspecting and maintaining the persisted response cache."""
