"""Notice authoring (admin API), public read-only API and the date-grouped listing."""
