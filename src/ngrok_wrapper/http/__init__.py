"""HTTP client for ngrok's local API."""

from .client import HttpClient, Parameter, RequestHook, Response, encode_parameters

__all__ = ["HttpClient", "Parameter", "RequestHook", "Response", "encode_parameters"]
