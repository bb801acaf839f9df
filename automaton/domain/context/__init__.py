# Context assembly for each cycle

# +---------------------+
# |      Memory         |   (pluggable provider, see memory/registry.py)
# |---------------------|
# | Recent turns        |
# | Session messages    |
# | Working memory      |
# +---------------------+

# +---------------------+
# |      State          |   (durable store, written by the loop only)
# |---------------------|
# | Agent state         |
# | Credits / tier      |
# | Sleep markers       |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |           Prompt             |   (rebuilt every cycle)
# |------------------------------|
# | System section               |
# | Recalled messages            |
# | Pending input (tagged)       |
# +------------------------------+
#         |
#         v
#   [reasoning backend -> actions]
