"""Customer-message automation pipeline for the CRM."""
