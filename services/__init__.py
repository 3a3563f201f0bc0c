"""
edgestack services

One package per deployable service: the edge router and the API service.
"""
