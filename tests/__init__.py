"""
Detector learning test suite

Structure:
- unit/: Unit tests for individual components (tree, mutation, detection, scoring, annealing)
- integration/: End-to-end learning on a synthetic dataset written to disk
"""
