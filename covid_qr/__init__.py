"""
COVID Certificate Decoder
=========================
Recovers verified vaccination records from certificate artifacts.

Architecture:
    - PDF Image Extractor: Pulls unmasked raster images out of PDF pages
    - QR Payload Reader: Locates the QR code and decodes its text
    - Envelope Codec: Unwraps the versioned "<version>;<base64>" payload
    - Signature Verifier: Recovers the signed line with the issuer's RSA key
    - Record Parser: Validates the eight record fields in order

Version: 1.0.0
"""

__version__ = "1.0.0"
