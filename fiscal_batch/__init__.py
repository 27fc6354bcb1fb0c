"""
fiscal_batch -- Job handlers for at-least-once delivered fiscal work.

Architecture:
    fiscal_batch/ is a top-level package sitting on top of the kernel
    services.  Nothing in fiscal_kernel/ or fiscal_authority/ imports
    from fiscal_batch.

Invariants:
    One handler per job type.  Handlers are idempotent under redelivery
    because the services they call are.
"""
