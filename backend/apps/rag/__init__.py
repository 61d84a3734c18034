"""
Embedding-backed similarity retrieval for incidents and runbook fragments.
"""
