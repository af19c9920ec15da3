"""State layout, address encoding and a JSON-RPC service and client for a token virtual machine."""

__version__ = "0.0.1"

__all__ = ["encoding", "version", "storage", "rpc_server", "rpc_client"]