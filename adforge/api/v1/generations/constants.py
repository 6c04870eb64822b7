"""Constants for generation routes."""

JOB_NOT_FOUND_DETAIL = "Generation job not found"
JOB_NOT_FINISHED_DETAIL = "Generation job has not finished yet"
