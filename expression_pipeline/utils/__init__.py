#!/usr/bin/env python3

"""
Utility module for the expression pipeline.
"""
