"""Read-only compliance summaries (review-due dates, classification completeness)."""
