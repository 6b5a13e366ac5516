"""
stubtree: dependency trees and test-double strategies for test-authoring prompts.
"""

__version__ = "0.1.0"
