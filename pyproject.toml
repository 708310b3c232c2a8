[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orderlb"
version = "0.1.0"
description = "Client-side load balancer that routes trading orders across gRPC gateways"
requires-python = ">=3.10"
keywords = ["grpc", "load-balancer", "orders", "trading", "gateway", "latency"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: System :: Networking",
]
dependencies = [
    "grpcio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
orderlb-gateway = "orderlb.gateway:main"
orderlb-client = "orderlb.client:main"

[tool.hatch.build.targets.wheel]
packages = ["orderlb"]

[tool.pytest.ini_options]
addopts = "-ra"
