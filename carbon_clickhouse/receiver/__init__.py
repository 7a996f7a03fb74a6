"""Plaintext (TCP, UDP), Prometheus remote-write and Telegraf JSON metric receivers."""