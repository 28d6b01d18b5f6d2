"""
Node Banana - Node-based AI image workflow engine.

Compose a graph of image inputs, prompts, annotation steps and generation
nodes, then execute it with bounded concurrency against the configured
providers.
"""

__version__ = "0.1.0"
__author__ = "Node Banana Contributors"
