from enum import Enum


LATEST = "latest"

REGISTRY_FILE = "envs.yaml"
ENVS_DIR = "envs"
REGISTRY_VERSION = 1

SHIM_DIR = "bin"
OVERRIDE_SHIM_VAR = "AKARI_OVERRIDE_SHIM"

LOCK_FILE = "akari.lock"
CHECKOUT_FILE = "AKARI_CHECKOUT"
INCOMING_REFS = "refs/akari/incoming"

# Binaries of the environment that activation puts on PATH, relative
# to the working directory
ENV_BIN_DIR = ".pixi/envs/default/bin"

SHELL_RC_BLOCK = """
# akari configuration
eval "$(akari shell hook)"
"""

POSIX_HOOK = """
akari() {
    case "$1" in
        activate|deactivate)
            eval "$(command akari "$@")" ;;
        *)
            command akari "$@" ;;
    esac
}
"""


class SupportedShells(str, Enum):
    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"
