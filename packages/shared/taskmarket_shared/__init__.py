"""Schemas shared between the taskmarket server and its clients."""
