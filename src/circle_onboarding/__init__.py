"""
Circle Onboarding - multi-step onboarding wizard engine.

Collects a new member's profile across a branching sequence of steps,
persists partial progress locally and to Supabase, and submits a normalized
payload once every applicable step is complete.
"""

__version__ = "1.0.0"
