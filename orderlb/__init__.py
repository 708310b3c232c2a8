"""Client-side load balancing of trading orders across gRPC gateways, with a gateway server."""

__version__ = "0.1.0"
__all__ = ["balancer", "client", "gateway", "messages"]