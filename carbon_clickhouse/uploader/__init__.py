"""Uploader settings, key hashing and metric path helpers."""