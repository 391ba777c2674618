[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gpudevices"
version = "0.14.4"
description = "GPU device bookkeeping: PCI vGPU capability parsing, device maps, replica allocation and health-check helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["gpu", "pci", "vgpu", "mig", "replicas", "allocation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gpudevices"]

[tool.pytest.ini_options]
addopts = "-ra"
