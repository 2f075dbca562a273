"""CFA attendance package.

Roll-call and e-signature attendance for the training center, organized by
feature modules (roll_calls, signature, class_sessions, ...) with a thin Flask
controller layer over service/repository layers.
"""
