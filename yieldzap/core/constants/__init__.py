from yieldzap.core.constants.chains import CHAIN_ID_BASE, SUPPORTED_CHAINS

__all__ = ["CHAIN_ID_BASE", "SUPPORTED_CHAINS"]
