"""azcompose - Azure IaC template composition resolver

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Security by design (secure parameters never reach logs or plans)
- Fail fast with helpful guidance

azcompose turns a workload (a graph of module instances), a module catalog
and a per-tenant, per-environment parameter bundle into a deterministic
realization plan: which modules are deployed, in which order, with which
validated inputs.
"""

__version__ = "0.1.0"
