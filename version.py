#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Trailhead Ingest - YouTube video and transcript ingestion for the adventure site.
"""

__version__ = "1.0.0"
