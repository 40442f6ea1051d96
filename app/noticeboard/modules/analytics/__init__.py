"""Site visit recording and view-count analytics."""
