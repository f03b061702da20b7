"""Storage provisioning steps: devices, volumes, filesystems, mounts, migration."""
