"""Circles domain: owner-managed groups that scope location sharing."""
