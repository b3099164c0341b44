"""Text generation passes for the autoloads artifacts."""
