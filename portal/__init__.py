"""Assignment portal: students submit, admins track."""
