from fuzzpatch.patch import apply_patch, apply_update_chunks, parse_patch_text

__all__ = ["apply_patch", "apply_update_chunks", "parse_patch_text"]
