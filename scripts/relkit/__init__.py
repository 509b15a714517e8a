"""Release-action step helpers: dependency policy, npm audit gating, PR commentary."""
