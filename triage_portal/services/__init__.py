"""Risk scoring, classifier, slot allocation and rescheduling services."""
