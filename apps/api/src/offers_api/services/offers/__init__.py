"""Read-path services for eligibility-filtered offer listings."""
