PACKAGE_VERSION = '1.4.0'                          # version of the daemon package
PACKAGE_DATE = '2024-03-11T12:00:00.000000+13:00'  # official timestamp for daemon package

# Semantic version of the JSON-RPC API surface served by `rpcserver`.
JSONRPC_API_MAJOR = 5
JSONRPC_API_MINOR = 0
JSONRPC_API_PATCH = 0
