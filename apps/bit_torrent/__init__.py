"""BitTorrent client adapter, torrent parsing and resource lifecycle management."""
