"""
Settings, configuration loading and command-line handling for the stack
bootstrap.
"""
