"""Rate limit rule resolution, counter storage and enforcement."""
