# Core modules for lazy_crf
