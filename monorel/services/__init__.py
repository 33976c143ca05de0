"""Application services for monorel.

Services implement the release workflow, coordinating between the domain
layer (core/) and infrastructure (git/, platform/).
"""
