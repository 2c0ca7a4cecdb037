"""CampusDesk school management API."""
