"""
Analytics module: event recording and usage summary endpoints.
"""
