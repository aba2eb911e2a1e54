"""CBAM certificate holdings: purchase, FIFO surrender and expiry."""
