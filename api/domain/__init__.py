# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the issue lifecycle engine.

This package contains pure business logic functions with no side effects:
the transition graph, authorization rules, timeline merging and
notification routing. All of it is testable without external dependencies.
"""
