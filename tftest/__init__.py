"""
Example-driven testing for Terraform modules.

Runs every example directory of a module through provision, idempotency
check, custom verification and destroy.
"""
