"""Step-by-step stages of the blockchain, from hashed blocks to transactions."""