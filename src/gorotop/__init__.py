"""gorotop - Go goroutine dump viewer."""
